"""Ingestion services."""

from planning_ingestion.services.reconciler import BulkReconciler, DrugResolver

__all__ = ["BulkReconciler", "DrugResolver"]
