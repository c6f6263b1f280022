"""Batch ORM models."""

from rental_batch.models.batch import BatchItemModel, BatchJobModel

__all__ = ["BatchItemModel", "BatchJobModel"]
