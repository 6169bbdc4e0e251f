"""
AI Module

Function-calling interpreter that turns chat requests into workflows.
"""
