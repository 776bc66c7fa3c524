"""Access-control policy service"""
