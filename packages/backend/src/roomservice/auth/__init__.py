"""Authentication seam.

Learn: User accounts and login are handled by the main ordering app.
This package only verifies the JWTs it issues and maps the "role" claim
to a yes/no decision for the staff-only order stream.
"""
