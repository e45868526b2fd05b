"""
Magento to WooCommerce Migration Engine

Moves catalog, customer and order data from a Magento store to a WooCommerce
store through a connector endpoint deployed on the Magento server.

Supports:
- Paginated extraction that stops on empty pages even when the remote count is wrong
- Normalization of products, categories, customers and orders
- Product media deduplication across gallery and image fields
- Idempotent re-runs backed by an external-ID mapping table
- Background jobs with persisted progress, cancellation and resume
"""

__version__ = "0.1.0"
