#!/usr/bin/env python3
from folio.cli import main

if __name__ == "__main__":
    main()
