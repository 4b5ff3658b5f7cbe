"""
Privilege separation: the operator acts, the target owns.

``Capability`` is the single seam to the host.  ``Mutator`` builds on
it and keeps the ownership ledger.
"""
