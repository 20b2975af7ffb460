# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Command line entry point: ``python -m powersvd data.csv --nv 3``.
"""

import argparse
import logging
import sys

import numpy as np
import pandas as pd

from .errors import ValidationError
from .frame import PartitionedFrame
from .store import Store
from .svd import SVD, SVDParameters
from .transform import TransformType


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="powersvd",
        description="Truncated SVD of a CSV file by the Power Method",
    )
    parser.add_argument("csv", type=str, help="Input CSV file with a header row")
    parser.add_argument("--nv", type=int, required=True, help="Number of singular vectors")
    parser.add_argument("--max-iterations", type=int, default=1000)
    parser.add_argument(
        "--transform",
        type=str,
        default="NONE",
        choices=[t.name for t in TransformType],
    )
    parser.add_argument("--only-v", action="store_true", help="Skip d and U")
    parser.add_argument("--recover-pca", action="store_true")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--partitions", type=int, default=1)
    parser.add_argument("--workers", type=int, default=1)
    parser.add_argument("--u-out", type=str, default=None, help="Write U to this CSV")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    df = pd.read_csv(args.csv)
    frame = PartitionedFrame.from_dataframe(df, args.partitions)
    params = SVDParameters(
        nv=args.nv,
        max_iterations=args.max_iterations,
        transform=TransformType.parse(args.transform),
        only_v=args.only_v,
        recover_pca=args.recover_pca,
        seed=args.seed,
        n_workers=args.workers,
    )
    store = Store()
    try:
        model = SVD(params, frame, store=store).train()
    except ValidationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    out = model.output
    names = [f"V{i + 1}" for i in range(args.nv)]
    print(pd.DataFrame(out.v, index=out.names, columns=names).to_string())
    if out.d is not None:
        print()
        print("Singular values:", np.array2string(out.d, precision=6))
    if out.pc_importance is not None:
        print()
        print(out.pc_importance.to_string())
    if args.u_out and out.u_key is not None:
        u = model.u(store)
        pd.DataFrame(u.to_numpy(), columns=u.names).to_csv(args.u_out, index=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
