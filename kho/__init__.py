"""Kho Dashboard - warehouse voucher service"""
