"""
Root pytest configuration.
The environment has to be set before any application module reads settings,
so the app runs on in-memory SQLite, the in-process cart store and eager Celery.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
