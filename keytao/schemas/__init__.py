"""Pydantic schemas for API requests/responses"""
