"""
Price prediction collaborators: the bounded price history and the numpy predictor.
"""
