"""
Siteagent: site-local executor for infrastructure lifecycle operations.

Runs create/update/delete/reboot operations against the local site
controller and reports every outcome back to the remote control plane.
"""

__version__ = "0.1.0"
