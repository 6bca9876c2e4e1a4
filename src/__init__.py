"""
Source package initialization.

Subpackages are imported explicitly by callers; nothing is loaded here so
that the integrations and email_processing packages can depend on each
other's leaf modules without import cycles.
"""
