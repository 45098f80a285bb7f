"""Relational store schema and engine helpers."""
