"""
Core business logic for video upload and delivery.

This module is framework-agnostic - it doesn't import FastAPI, boto3,
or any infrastructure concerns. The object store is reached through a
Protocol, so the whole upload lifecycle can be tested against an
in-memory store.
"""
