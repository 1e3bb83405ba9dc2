import warnings

# Suppress boto3's interpreter deprecation notices. They clutter the output of
# every scheduled sync run.
warnings.filterwarnings("ignore", category=DeprecationWarning, module="boto3")
warnings.filterwarnings("ignore", category=DeprecationWarning, module="botocore")
