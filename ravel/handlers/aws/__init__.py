"""
AWS implementations of the resource handlers (boto3).
"""
