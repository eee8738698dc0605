"""
Component hierarchy pipeline.

    loader → parser → resolver → stamper → cache_manager
                                              ▲
                         service ─────────────┘
"""

from omnimap.hierarchy.cache_manager import CacheManager, ExternalCachePort
from omnimap.hierarchy.loader import KindBatch, RecordLoader
from omnimap.hierarchy.parser import ParsedComponent, parse_record
from omnimap.hierarchy.resolver import ComponentRegistry, HierarchyResolver, ResolutionResult
from omnimap.hierarchy.service import ComponentService
from omnimap.hierarchy.stamper import ReferencePathStamper, StampResult

__all__ = [
    "RecordLoader",
    "KindBatch",
    "ParsedComponent",
    "parse_record",
    "ComponentRegistry",
    "HierarchyResolver",
    "ResolutionResult",
    "ReferencePathStamper",
    "StampResult",
    "CacheManager",
    "ExternalCachePort",
    "ComponentService",
]
