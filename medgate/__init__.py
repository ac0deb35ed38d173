"""
MedGate Medication Administration Verification
==============================================

A Python library that decides, for a single medication administration
attempt in a care home, whether a staff member may proceed to give a
resident a dose.  Ten verification stages run against fresh snapshots of
the resident, medication, prescription and staff records; attempts on the
same resident/medication pair are serialized; and every attempt leaves
exactly one append-only, tamper-evident audit entry.

DISCLAIMER: This software supports, and does not replace, the professional
judgement of staff administering medication.  A PROCEED decision means no
check found a reason to stop; it is not a clinical recommendation.
"""

__version__ = "0.1.0"
