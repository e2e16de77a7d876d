import argparse

from superres.pipelines.pipeline_map_super_resolution import main


def str2bool(v):
    if isinstance(v, bool):
        return v
    if v.lower() in ('yes', 'true', 't', 'y', '1'):
        return True
    elif v.lower() in ('no', 'false', 'f', 'n', '0'):
        return False
    else:
        raise argparse.ArgumentTypeError('Boolean value expected.')


if __name__ == "__main__":
    # Initialize argument parser
    parser = argparse.ArgumentParser(description="Run MAP-IRLS multi-frame super-resolution with a JSON config.")

    # Add optional positional argument
    parser.add_argument(
        "cfg_path_str",
        nargs="?",  # '?' makes the argument optional
        default="configs/map_irls_config.json",
        help="Path to the configuration JSON file"
    )

    parser.add_argument(
        "verbose",
        nargs="?",
        default=True,
        type=str2bool,
        help="Print solver progress (True/False)"
    )

    args = parser.parse_args()

    main(args.cfg_path_str, verbose=args.verbose)
