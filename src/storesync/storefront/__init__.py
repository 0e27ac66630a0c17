"""Storefront records consumed by the sync subsystem.

The storefront database is an external collaborator: these models map only
the columns the adapters read, plus the external-id columns they write back.
"""
