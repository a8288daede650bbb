"""
Club Community Service
"""
