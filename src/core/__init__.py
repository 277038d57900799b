"""
Core logic for the training app shell.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
boto3 or any infrastructure concerns. The identity provider, document
store and page source are injected, so the session lifecycle and the
navigation state machine can be tested in isolation.
"""
