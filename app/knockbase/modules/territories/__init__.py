"""
Territories module.

Polygons drawn by owners/managers; a lead's coordinate is matched against them
with a ray-casting test (geofence.py). Overlaps resolve through a named tie-break
policy, never through storage order.
"""
