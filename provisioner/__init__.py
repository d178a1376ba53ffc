"""
Runtime Provisioner - installs a JDK and a source-built Python and emits an
environment descriptor for later process stages.
"""

__version__ = "1.0.0"
