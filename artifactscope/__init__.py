__app_name__ = "ArtifactScope"
__version__ = "0.3.0"
