"""
mailauth.services - Business Logic Services

Contains the service layer of mailauth; see mailauth.services.oauth.
"""
