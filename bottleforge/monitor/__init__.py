"""Terminal presentation of provisioning runs.

Modules
-------
renderer
    ``RunRenderer`` turns ``RunReport`` (live or from the status record)
    into Rich renderables for terminal display.
"""
