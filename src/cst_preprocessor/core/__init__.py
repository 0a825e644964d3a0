"""
Core Package.

Contains the rewriting machinery shared by every rule:
- Node fingerprints and semantic context stores
- The traversal engine and its rule adapters
- The format-preserving printer
- Source units and the batch orchestrator
"""
