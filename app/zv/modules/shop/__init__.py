"""
Shop module: the product catalogue (battlepasses, merch, add-ons) and orders.

Order items snapshot price, SKU, title and battlepass uses at purchase time so later
catalogue edits never change what was paid for.
"""
