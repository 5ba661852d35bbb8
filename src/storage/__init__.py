"""Blob storage adapters."""

from .blob_store import BlobStore, SupabaseBlobStore

__all__ = ["BlobStore", "SupabaseBlobStore"]
