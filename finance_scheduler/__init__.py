"""
Finance Scheduler - Source Package

The scheduled (recurring) transaction engine of a personal finance
manager. It decides when a recurring payment is next due, executes it
against an account balance and reports what happened.

DESIGN PRINCIPLES:
1. Time is always an explicit parameter (no hidden "today")
2. A schedule is never advanced unless its payment really happened
3. One failing schedule never stops a batch run
4. Every state change is auditable
5. Storage and gateways are swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Scheduler Team"
