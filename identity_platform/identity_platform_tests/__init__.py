"""
Tests for the identity service: OTP lifecycle, authentication flows,
user CRUD, uploads and the ambient configuration/logging layers.
"""
