from dotenv import load_dotenv

load_dotenv(override=True)

from ipgate.config import load_config
from ipgate.core import run_gate

def main():
    config = load_config()
    run_gate(config)

if __name__ == "__main__":
    main()
