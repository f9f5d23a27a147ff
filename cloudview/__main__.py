"""Run the CloudView API server: python -m cloudview"""
from cloudview.api.main import run

if __name__ == "__main__":
    run()
