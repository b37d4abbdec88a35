"""Pipelines shipped with taskrail."""

from taskrail.pipelines.sample import register_samples

__all__ = ["register_samples"]
