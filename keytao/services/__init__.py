"""Business services for the dictionary platform"""
