"""
pluginwire - serve a plugin to a go-plugin style host over mTLS gRPC.
"""

__version__ = "0.1.0"
__logo__ = "🔌"
