"""Authentication module (bearer JWT verification).

Token issuance belongs to the account service; this module only checks
presented credentials.

Services:
    - IdentityVerifier: resolves a bearer JWT to the user it was issued for.
"""
