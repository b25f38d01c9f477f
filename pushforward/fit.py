import functools
import numpy
import pandas
from typing import Dict, Iterable, Optional, Union


def _build_constrained_dfs(constrained_variables: Dict[str, numpy.ndarray]) -> Dict[str, pandas.DataFrame]:
    """
    Re-sort values stored as a dictionary of arrays into dataframes

    Scalar arrays are expected to have shape (num_chains,), vector arrays (num_chains, size).
    Vector elements get an `index` column
    """
    draw_dfs: Dict[str, pandas.DataFrame] = {}
    for name, constrained_variable in constrained_variables.items():
        num_chains = constrained_variable.shape[0]

        if constrained_variable.ndim == 1:
            df = pandas.DataFrame({"chain": numpy.arange(num_chains)})
        else:
            size = int(numpy.prod(constrained_variable.shape[1:]))
            df = pandas.DataFrame(
                {
                    "index": numpy.tile(numpy.arange(size), num_chains),
                    "chain": numpy.repeat(numpy.arange(num_chains), size),
                }
            )

        df[name] = constrained_variable.flatten(order="C")
        draw_dfs[name] = df

    return draw_dfs


def _check_convergence_and_select_one_chain(draw_dfs: Dict[str, pandas.DataFrame], tolerance: Optional[float]):
    # Check that all the optimization solutions are vaguely close to each other
    checked_dfs = draw_dfs.items() if tolerance is not None else ()
    for name, draw_df in checked_dfs:
        group_columns = list(set(draw_df.columns) - set([name, "chain"]))
        if len(group_columns) > 0:
            median_df = draw_df.groupby(group_columns).agg({name: "median"}).rename(columns={name: "median"}).reset_index()
            checked_df = draw_df.merge(median_df, on=group_columns, how="left")
        else:
            checked_df = draw_df.assign(median=draw_df[name].median())

        checked_df = (
            checked_df.assign(absolute_difference=lambda df: (df[name] - df["median"]).abs())
            .assign(tolerance=lambda df: numpy.maximum(tolerance, tolerance * df[name].abs()))
            .assign(converged=lambda df: df["absolute_difference"] <= df["tolerance"])
        )

        not_converged = ~checked_df["converged"]
        if not_converged.any():
            values_string = ",".join(str(value) for value in checked_df[name])
            differences_string = ",".join(str(difference) for difference in checked_df["absolute_difference"])
            raise Exception(
                f"Optimizations did not converge for {name}: values [{values_string}] have absolute differences"
                f" [{differences_string}] from their median exceeding tolerance {tolerance}"
            )

    # Only copy one optimization result
    output_draw_dfs = {}
    for name, draw_df in draw_dfs.items():
        output_draw_dfs[name] = draw_df[draw_df["chain"] == 0].drop(columns="chain").reset_index(drop=True)

    return output_draw_dfs


class OptimizationFit:
    """
    Stores optimization results
    """

    draw_dfs: Dict[str, pandas.DataFrame]

    def __init__(self, draw_dfs: Dict[str, pandas.DataFrame], log_density: float = None):
        self.draw_dfs = draw_dfs
        self.log_density = log_density

    @classmethod
    def _from_constrained_variables(cls, constrained_variables: Dict[str, numpy.ndarray], tolerance: float, log_density: float = None):
        draw_dfs = _build_constrained_dfs(constrained_variables)
        return cls(_check_convergence_and_select_one_chain(draw_dfs, tolerance), log_density)

    def draws(self, names: Union[str, Iterable[str]]) -> pandas.DataFrame:
        """
        Get the optimum for given variable(s). Vector variables have an `index` column.

        If multiple names given, outer join the tables for each name and return that result
        """
        if isinstance(names, str):
            return self.draw_dfs[names]
        else:
            draw_dfs = [self.draw_dfs[name] for name in names]
            return functools.reduce(_merge, draw_dfs)


def _merge(left: pandas.DataFrame, right: pandas.DataFrame) -> pandas.DataFrame:
    on = [column for column in left.columns if column in right.columns]
    if len(on) > 0:
        return pandas.merge(left, right, how="outer", on=on)
    else:
        return pandas.merge(left, right, how="cross")
