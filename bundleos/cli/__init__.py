"""CLI module"""
