"""Bundled stack descriptions."""

from .jasperreports import JASPERREPORTS_STACK


STACKS = {
    "jasperreports": JASPERREPORTS_STACK,
}


__all__ = ["JASPERREPORTS_STACK", "STACKS"]
