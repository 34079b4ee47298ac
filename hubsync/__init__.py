"""
hubsync -- Content graph synchronizer for the ApproVideo learning hub.

Package layout:
    models/         Entity models, record normalizer, import validators
    content_tree    Structured tree (Area -> Subcategory -> Video) on NetworkX
    structurer      Cold-start tree construction from flat collections
    live_patch      Incremental application of store change notifications
    reconciler      Bulk import merge by natural key
    query_engine    Multi-predicate search and catalog analytics
    synchronizer    Facade owning one tree, one event bus and one store
"""

__version__ = "3.1.0"
