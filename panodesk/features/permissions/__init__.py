"""
Permission feature module.

A static role policy (which role may do what, and which roles it may hand
out), ownership checks for organizations and comments, and the audit log.
"""
