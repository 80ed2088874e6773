"""Metric sinks"""
