"""
Leads module.

Scope:
- Lead CRUD for the signed-in actor (always owned by the creator)
- Door-knock dispositions (status + knocked_at stamp)
- Reassignment by owners/managers within their visible team
- Territory auto-assignment from the lead's coordinate
"""
