"""Shared Kernel module.

Components shared by the gateway's packages: the HTTP layer, the stitching
context and the development utilities all depend on what lives here, so
changes must be coordinated across them.
"""
