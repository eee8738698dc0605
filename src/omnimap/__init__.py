"""
omnimap - component hierarchy resolver with a two-tier per-tenant cache.

Packages:
- omnimap.core: primitives (errors, results, logging, settings, cache, models)
- omnimap.sources: record sources (upstream REST, JSON file, in-memory)
- omnimap.hierarchy: loader, parser, resolver, stamper, cache manager, service
- omnimap.ops: transport-agnostic operations returning OperationResult
- omnimap.api / omnimap.cli: REST and command-line transports
"""

__version__ = "0.1.0"
