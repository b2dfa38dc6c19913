from abc import ABC, abstractmethod


class BaseObjectStorage(ABC):
    """Contract for encrypted, key-addressed object storage backends."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> None:
        """Write an object. Encryption at rest is applied by the backend.

        Raises:
            StorageError: if the write fails for any reason.
        """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read an object's bytes.

        Raises:
            StorageError: if the object is missing or cannot be read.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error.

        Raises:
            StorageError: if the backend rejects the delete.
        """
