"""TrendScope: trend reconciliation pipeline for migration quality dashboards."""
