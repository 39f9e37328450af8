"""Cryptography, BSN handling and access control primitives."""
