"""Lifecycle controller for control-plane compute instances."""

from .resources.instance import InstanceResource

__all__ = ["InstanceResource"]
