"""``python -m sales_dw``: run the pipeline once."""
import sys

from sales_dw.etl.run import main

if __name__ == "__main__":
    sys.exit(main())
