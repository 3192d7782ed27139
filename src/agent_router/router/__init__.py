"""Task routing across a catalog of external agents.

Flow per task: the classifier scores complexity and domain tags, the router
picks a primary and fallbacks at or below the recommended tier and reserves
the primary's cost in the budget ledger, and the coordinator runs the plan
one attempt at a time, feeding outcomes back into the registry and the
metrics store.

Why not a workflow engine?
~~~~~~~~~~~~~~~~~~~~~~~~~~
Every decision here is in-process and synchronous: a registry lookup, one
ledger mutex, and a bounded number of sequential attempts. A broker or
scheduler would add an operational dependency without removing any of the
routing, budget, or fallback logic, which would still have to live in task
code.
"""
