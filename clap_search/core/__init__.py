"""
Configuration, persistence handles and the pipeline controller.
"""
