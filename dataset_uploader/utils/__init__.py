"""Shared helpers for dataset_uploader."""
