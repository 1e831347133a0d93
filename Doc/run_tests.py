#!/usr/bin/env python
"""
Test runner script for comprehensive test execution
Usage: python Doc/run_tests.py [app ...]
"""
import os
import sys
import django
from django.conf import settings
from django.test.utils import get_runner

APPS = [
    'backend.core',
    'backend.catalog',
    'backend.parties',
    'backend.orders',
    'backend.reports',
]

if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backend.config.settings')
    django.setup()
    TestRunner = get_runner(settings)
    test_runner = TestRunner()
    failures = test_runner.run_tests(sys.argv[1:] or APPS)
    sys.exit(bool(failures))
