"""Resource inventory fetchers"""
