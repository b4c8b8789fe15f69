"""
FastAPI Application Package

This package contains the FastAPI application that owns the analytics
services and exposes arbitrage scans, scanner control and cache/limiter
observability over REST.
"""
