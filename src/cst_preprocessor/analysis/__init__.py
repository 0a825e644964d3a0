"""
Static Analysis Package.

This package contains the shallow inference used by the rewrite rules.

Modules:
    - ``types``: Inferred type representations and helpers.
    - ``imports``: Module-level import bindings.
    - ``declarations``: Classes, methods and fields of the whole batch.
    - ``reflection``: Runtime lookups for classes outside the batch.
    - ``context``: Scopes and the per-node semantic context.
    - ``symbol_table``: Inferring variable types and scopes.
"""
