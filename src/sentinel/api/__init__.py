"""
API module for Sentinel.

Provides REST API routes for:
- Authentication and team management
- Case workflow, queries and archive
- Case and patron files
- Reports, dashboard and personal settings
"""
