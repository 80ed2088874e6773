"""Metric models, aggregation, registry and reporting"""
