"""
Account administration (owners and managers).

Hard constraints:
- Managers only create reps, supervised by themselves
- Nobody changes their own role or deactivates/deletes themselves
- Password hashes never leave the server
"""
