"""
Open Notebook CLI

Command-line client for the Open Notebook knowledge-base API. The transport
package provides the resilient HTTP layer (retry, classification,
degradation advice, streaming and connectivity diagnostics) the command
layer is built on.
"""

__version__ = "0.1.0"
