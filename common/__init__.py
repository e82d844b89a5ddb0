"""
Shared pieces for the gateway and the widget: data types, the error taxonomy,
great-circle math, the map style table, and JSON logging.
"""
