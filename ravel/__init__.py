"""
Ravel - Reconcile and tear down tagged cloud resources for a cluster.

This package converges live cloud resources toward declared desired states
and deletes a cluster's footprint in dependency order.
"""

__version__ = "0.1.0"
__author__ = "Ravel Authors"
