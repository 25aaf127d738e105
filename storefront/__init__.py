"""
Storefront Backend

Catalog, orders and point-of-sale transactions behind a REST API, with a
cached sales dashboard in dual currency (USD/LRD).
"""
