"""HTTP server, shared context and scrape loop"""
