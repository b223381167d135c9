import sys

from http_s3.main import run

sys.exit(run())
