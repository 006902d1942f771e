"""
MedSnap Backend — Abstract Blob Storage Interface
===================================================

What:  Contract for the object store holding uploaded files.
Why:   The catalog only needs put / remove / sign. Hiding the backend behind
       this interface lets development run on local disk and production on
       the hosted storage bucket without the catalog noticing.
How:   Concrete implementations inherit from BlobStorage:
       - LocalBlobStorage:    aiofiles on disk, HMAC-signed /api/files URLs
       - SupabaseBlobStorage: hosted bucket over its REST API (httpx)

Paths:
    A blob path is "<user_id>/<name>". It is the stable reference stored in
    guidelines.file_path. Signed URLs are derived from it per read and never
    persisted.
"""

from abc import ABC, abstractmethod


class BlobStorage(ABC):
    """
    Abstract interface for blob storage.

    Contract:
        - put() never overwrites; a path that already exists is an error
        - remove() of a missing blob is not an error
        - every failure is raised as FileStorageError
    """

    name = "blob"

    @abstractmethod
    async def put(self, path: str, content: bytes, content_type: str) -> str:
        """
        Store a blob.

        Returns:
            The stored path (the value to persist in guidelines.file_path).

        Raises:
            FileStorageError: The write failed or the path is taken.
        """
        ...

    @abstractmethod
    async def remove(self, path: str) -> None:
        """
        Delete a blob.

        Raises:
            FileStorageError: The backend refused or failed the delete.
        """
        ...

    @abstractmethod
    async def signed_url(self, path: str, expires_in: int) -> str:
        """
        Mint a time-limited read URL for a blob.

        Raises:
            FileStorageError: The backend could not sign the path.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the backend is reachable. Never raises."""
        ...
