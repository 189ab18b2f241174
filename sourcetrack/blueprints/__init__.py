"""
SourceTrack
Blueprint registry: one module per API area, registered in create_app().
"""
